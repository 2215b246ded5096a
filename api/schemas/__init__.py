"""Pydantic request and response models for the DoseSentinel API"""
