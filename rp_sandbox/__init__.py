"""Multi-character roleplay sandbox: world model, turn pipeline and storage."""
