"""Messaging, audit and scheduling services"""
