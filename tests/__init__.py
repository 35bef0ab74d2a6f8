"""
Tests for the DQN Trader
========================

Run all tests:
    pytest tests/

Run with coverage:
    pytest tests/ --cov=dqn_trader --cov-report=html
"""
