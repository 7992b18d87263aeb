"""UniHub gamification engine: points ledger, badge ladder, leaderboard and fan-out."""

__version__ = "0.1.0"
