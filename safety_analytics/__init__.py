"""
Women Safety Analytics

Real-time SOS alerting: finds registered users near an emergency, streams the
alert to dashboards over Server-Sent Events and serves crime zone data.
"""

__version__ = "1.0.0"
__author__ = "Women Safety Analytics Team"
