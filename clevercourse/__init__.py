"""CleverCourse gamification engine: XP, levels, streaks, Sparks and achievements."""
