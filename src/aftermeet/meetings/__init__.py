"""Meeting lifecycle -- schemas, persistence, link detection, and the bot pipeline.

Meetings move pending -> scheduled -> completed, with error and cancelled as
the other terminal states. Calendar sync discovers events, the bot dispatcher
schedules Recall.ai bots, and the transcript poller hands finished transcripts
to the content generator.
"""
