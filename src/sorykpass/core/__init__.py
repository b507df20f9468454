"""Configuration, database, redis, logging and metrics"""
