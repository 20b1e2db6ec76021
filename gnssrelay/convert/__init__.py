from .converter import FormatConverter, converter_for

__all__ = ["FormatConverter", "converter_for"]
