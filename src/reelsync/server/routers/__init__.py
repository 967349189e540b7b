"""HTTP routers for the public and admin applications."""
