#!/usr/bin/env python3
"""
Corewatch Crash Forensics Package

Post-mortem analysis of crashed server processes: core file discovery,
scripted gdb/lldb/cdb sessions and reproduction hints.
"""

from .core_pattern import CoreLocationDecision, CorePatternResolver, locate_core_file
from .crash_analyser import (
    AnalysisResult,
    CrashAnalyser,
    HostPlatform,
    analyse_crash,
    get_last_output,
)
from .debugger import CDBDebugger, DebuggerRun, DebuggerStrategy, GDBDebugger, LLDBDebugger
from .models import AnalysisOptions, DebuggerTiming, ProcessRecord

__all__ = [
    'AnalysisOptions',
    'AnalysisResult',
    'CDBDebugger',
    'CoreLocationDecision',
    'CorePatternResolver',
    'CrashAnalyser',
    'DebuggerRun',
    'DebuggerStrategy',
    'DebuggerTiming',
    'GDBDebugger',
    'HostPlatform',
    'LLDBDebugger',
    'ProcessRecord',
    'analyse_crash',
    'get_last_output',
    'locate_core_file',
]
