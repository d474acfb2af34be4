"""
Profile Runner - Supervised Browser-Profile Automation Operator

Launches one automation worker process per browser profile, classifies how
each run ended, walks failing profiles through an escalating recovery ladder
and pauses profiles whose error streak crosses the configured threshold.
"""

__version__ = "0.1.0"
__author__ = "Profile Runner Team"
