"""Host service: transport adapter, room store and wire models for the Salem moderator."""
