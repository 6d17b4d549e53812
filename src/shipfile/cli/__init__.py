"""Shipfile command line interface."""
