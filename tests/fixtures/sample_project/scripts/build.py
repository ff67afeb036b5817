from .helpers import run
import os


def build():
    run(os.getcwd())
