"""Prometheus metrics and HTTP instrumentation"""
