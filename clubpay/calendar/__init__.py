"""
Module 'calendar': séances réservables et index jour -> séances.
"""
