"""
Presence hub: authenticates companion clients, tracks who is online and
tells mutually paired clients when their partners come and go.
"""
