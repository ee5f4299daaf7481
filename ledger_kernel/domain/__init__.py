"""Pure domain types: clock abstraction and frozen DTOs."""
