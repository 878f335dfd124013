"""Exam attempt lifecycle and scoring service."""
