"""
AdminHub - real-time status pipeline and action dispatcher

Keeps a live view of the deployer control service, every managed
application and the host server, and serialises operator-triggered
lifecycle actions per (application, action).
"""
