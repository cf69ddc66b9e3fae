"""Financial metrics derivation engine with a terminal front end."""
