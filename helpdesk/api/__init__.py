"""HTTP surface of the helpdesk backend."""
