"""HTTP routers for the persistent-server transport."""
