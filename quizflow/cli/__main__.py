"""Allow running with: python -m quizflow.cli"""

from quizflow.cli.main import main

if __name__ == "__main__":
    main()
