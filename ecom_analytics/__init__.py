"""
E-Commerce Warehouse Analytics

Raw e-commerce records in; typed canonical snapshots, trend, tier, RFM and
alert analytics out.
"""

__version__ = "1.0.0"
