"""Headless command-line front end for slowdiag."""
