"""Service cores: each service owns its store and talks to the others through events."""
