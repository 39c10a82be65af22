"""Account persistence: sharding, password hashing, login and registration."""
