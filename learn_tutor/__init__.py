"""learn-tutor: spaced-repetition scheduling engine for self-generated study cards."""

__version__ = "0.1.0"
