from enum import Enum

# Enums
class EntityStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

class MenuType(str, Enum):
    LINK = "link"
    DROPDOWN = "dropdown"
    SEPARATOR = "separator"
    HEADER = "header"

class MenuTarget(str, Enum):
    SELF = "_self"
    BLANK = "_blank"
    PARENT = "_parent"
    TOP = "_top"

class GrantAction(str, Enum):
    ASSIGN = "assign"
    REMOVE = "remove"
