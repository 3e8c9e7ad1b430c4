"""Version information for Script Runner."""

VERSION = "0.3.0"
DISPLAY_NAME = "Script Runner"
PACKAGE_NAME = "scriptrunner"
