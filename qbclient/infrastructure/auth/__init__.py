"""Authentication strategies implementing the AuthStrategy port."""
