"""Core: conversation messages, ports, persona and the session store."""
