"""Shared response envelope and validators"""
