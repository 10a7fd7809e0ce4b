"""Report formats for validation results: JSON, JUnit, pretty, TAP and text."""