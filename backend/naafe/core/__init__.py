"""Core building blocks shared by services and routers."""
