"""Segmented audio capture for elderly / young adult conversations."""
