"""Test doubles for the pool test suite"""
