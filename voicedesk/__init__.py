"""Voice agent <-> commerce / marketing integration service."""
