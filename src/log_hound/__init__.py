"""log-hound - search and tail CloudWatch and Kamal container logs"""

__version__ = "0.1.0"
