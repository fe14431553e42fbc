# qt_compat.py
try:
    from PySide6 import QtCore, QtPositioning
    IS_QT6 = True
except ModuleNotFoundError as e:
    # Only fallback if PySide6 truly isn't installed
    if e.name != "PySide6":
        raise  # It's a real load error (keep the traceback!)
    from PySide2 import QtCore, QtPositioning
    IS_QT6 = False


# QtCore Classes
# =========================================
QCoreApplication    = QtCore.QCoreApplication
QDateTime           = QtCore.QDateTime
QStandardPaths      = QtCore.QStandardPaths

# QtPositioning Classes
# =========================================
QGeoCoordinate          = QtPositioning.QGeoCoordinate
QGeoPositionInfo        = QtPositioning.QGeoPositionInfo
QGeoPositionInfoSource  = QtPositioning.QGeoPositionInfoSource
