"""HTTP API for the pick'em and season analytics core."""
