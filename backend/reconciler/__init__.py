"""
Live Match State Reconciliation Engine.
Keeps derived match fields (current minute, half splits, completeness markers)
consistent and monotonic on top of an unreliable upstream feed.
"""
