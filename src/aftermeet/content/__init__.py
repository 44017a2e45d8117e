"""AI content -- user automations and the content generated from meeting transcripts.

Every finished transcript yields one follow-up email plus one social post per
automation the meeting's owner has configured. Rows are upserted so that
generation can be re-run without duplicating content.
"""
