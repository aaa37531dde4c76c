"""
Schedule Engine Tests

Running Tests:
    pip install -e ".[test]"
    pytest tests/unit -v
"""
