"""Shared configuration, logging, models and errors for the caption review services."""
