"""Composable async proxy pipeline for API gateways: requests, merging, static data, shadowing, modifier plugins and HTTP backends."""

__version__ = "0.1.0"