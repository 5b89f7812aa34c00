"""HTTP routers for the patchstream engine API."""
