"""Convert SwiftUI ObservableObject code to the Observation framework."""

from .pipeline import Conversion, ConversionError, convert_files, convert_source

__all__ = ['Conversion', 'ConversionError', 'convert_files', 'convert_source']
