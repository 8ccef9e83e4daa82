"""
fleetctl command line interface.
"""
