"""Coupon & discount validation engine."""
