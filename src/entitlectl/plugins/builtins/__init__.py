"""Built-in collaborators shipped with entitlectl."""
