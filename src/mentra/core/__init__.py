"""Core learning logic.

Modules:
- scoring: step response scoring
- difficulty: performance profiles and difficulty adaptation
- session_analytics: progress, engagement, anomalies and trajectories
- problem_solving: scaffolded problem sessions
- engagement: engagement levels, alerts and weekly summaries
- rewards: streaks and achievements
- access: who may view whose data
"""
