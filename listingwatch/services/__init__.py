"""Business services: matching, scanning and watch bookkeeping."""
