"""
Service layer

Pure calculation only, no state transitions and no database access:
- AssignmentService: roster, hidden faction and team draws
- RatingService: rating deltas and stat counters for a resolved round
- StatsService: leaderboard order, rank and percentages
"""
