"""
Deploymint: a port-based supervisor for local development servers.

A server is considered running exactly when some process is bound to one of
its configured ports. The supervisor frees those ports before launching and
stops a server by terminating whatever holds them.
"""
