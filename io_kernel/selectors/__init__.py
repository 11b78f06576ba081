"""Read-only query selectors returning domain DTOs."""
