"""Executable query sequences: chains, conditions, load balancing, parallel and fallback nodes."""