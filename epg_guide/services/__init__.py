"""
Services package for the EPG guide

Pipeline stages (parsing, correlation, windowing, orchestration) and the
service layer around them (refresh, cache, persistence, queries, scheduling).
"""
