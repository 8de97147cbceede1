"""HTTP routers for the gesture UNO server."""
