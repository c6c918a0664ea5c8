"""Recurring pattern detection pipeline: normalize, group, classify, score, reconcile."""
