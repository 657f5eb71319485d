__version__ = "0.3.0"
__git_revision__ = ""
