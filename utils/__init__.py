from utils.ast_utils import (ASTNode
                             , compose
                             , compose_multiple
                             , contains_var
                             , count_occurrences
                             , free_variables
                             , node_kind
                             , num
                             , structurally_equal
                             , substitute)
from utils.errors import (ArithmaError
                          , CodegenError
                          , DifferentiationError
                          , EvaluationError
                          , IntegrationError
                          , LexError
                          , MatrixError
                          , ParseError
                          , SolveError)
from utils.print_utils import print_errors, format_number, to_latex, _pformat, _from_torch
from utils.type_checker_utils import (type_to_str
                                      , get_shape
                                      , make_matrix_type
                                      , types_compatible
                                      , type_infer)
