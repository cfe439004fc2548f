from .ports import PortSpace, PORT_COUNT

__all__ = ['PortSpace', 'PORT_COUNT']
