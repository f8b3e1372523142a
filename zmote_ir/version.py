# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Version of the zmote_ir package"""

# The following line is automatically updated with "semantic-release version"
__version__ =  "1.0.0"


__all__ = [ '__version__' ]
