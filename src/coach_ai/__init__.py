"""AI coach: workout metrics, intent classification, local replies and the relay client."""
