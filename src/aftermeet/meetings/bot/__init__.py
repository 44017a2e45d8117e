"""Meeting bot pipeline -- Recall.ai bot scheduling and transcript collection.

Provides RecallClient for the Recall.ai REST API, BotDispatcher for creating
bots for opted-in meetings, and TranscriptPoller for turning finished
recordings into generated content.
"""
