"""Interview services: step/loop controllers, generation, speech, orchestration."""
