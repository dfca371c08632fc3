"""Standalone simulation of the Stream Deck host for the Eeko trigger action."""
