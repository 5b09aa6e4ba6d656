"""
Listings service package.
"""
