"""
Intent pipeline for voice buddy.

Transcript -> prompt -> local LLM intent -> validation -> one action -> feedback.

- Nothing irreversible happens before the dispatcher
- Every rejection is decided before dispatch and is safe to retry by the user
- All stages are observable via structured events keyed by command_id
"""
