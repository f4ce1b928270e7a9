"""Allow `python -m ctrbuild`."""
from ctrbuild import main

if __name__ == '__main__':
    main()
