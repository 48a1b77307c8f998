"""Command-line interface for the cell proximity analyses"""
