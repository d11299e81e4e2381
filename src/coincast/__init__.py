"""Coincast: community crypto price predictions with vote-weighted consensus."""

__version__ = "0.1.0"
